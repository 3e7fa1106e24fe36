def fibonacci(n: int) -> int:
    """Return the n-th Fibonacci number."""
    if n < 2:
        return n
    a, b = 0, 1
    for _ in range(n - 1):
        a, b = b, a + b
    # b now holds fib(n)
    return b


if __name__ == "__main__":
    for i in range(10):
        print(i, fibonacci(i))
