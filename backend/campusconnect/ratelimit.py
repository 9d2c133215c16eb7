from slowapi import Limiter
from slowapi.util import get_remote_address

from .settings import TESTING

limiter = Limiter(key_func=get_remote_address)


def rate_limit(limit: str):
    if TESTING:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)
