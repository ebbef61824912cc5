"""Key naming for FinSphere's Redis-backed state."""

import os


class CacheKeyBuilder:
    PREFIX = os.getenv('CACHE_KEY_PREFIX', 'fs')

    @classmethod
    def build(cls, namespace: str, *args) -> str:
        parts = [cls.PREFIX, namespace]
        parts.extend(str(a) for a in args)
        return ':'.join(parts)

    @classmethod
    def presence(cls) -> str:
        return cls.build('presence')
