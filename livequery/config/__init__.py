from livequery.config.runtime import ClientSettings

__all__ = ["ClientSettings"]
