"""String helpers for GAL programs: from python.text use concat"""


def concat(a, b):
    return f"{a}{b}"


def upper(s):
    return s.upper()


def lower(s):
    return s.lower()


def length(s):
    return len(s)


def show(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def println(value):
    print(show(value))
