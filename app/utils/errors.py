"""Helpers for turning exception chains into operator-readable messages."""

MAX_CAUSE_DEPTH = 5


def _describe_one(exc: BaseException) -> str:
    message = str(exc) or exc.__class__.__name__
    code = getattr(exc, "errno", None) or getattr(exc, "reason", None)
    if isinstance(code, int) or (isinstance(code, str) and code):
        if str(code) not in message:
            return f"{code}: {message}"
    return message


def describe_exception(exc: BaseException) -> str:
    """
    Describe an exception together with its cause chain.

    httpx wraps transport failures (DNS lookup, TLS handshake, connection
    reset) in generic ``ConnectError``/``ReadError`` instances; the useful
    detail lives in ``__cause__`` / ``__context__``. Walks the chain up to
    ``MAX_CAUSE_DEPTH`` levels, drops duplicate messages and joins the rest
    with arrows, outermost first.
    """
    parts: list[str] = [_describe_one(exc)]
    current = exc.__cause__ or exc.__context__
    depth = 0

    while current is not None and depth < MAX_CAUSE_DEPTH:
        parts.append(_describe_one(current))
        current = current.__cause__ or current.__context__
        depth += 1

    unique = list(dict.fromkeys(parts))
    return " -> ".join(unique)
