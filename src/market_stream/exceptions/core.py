class StreamError(Exception):
    pass

class ConfigError(StreamError):
    pass

class DataError(StreamError):
    """Malformed inbound tick data; callers drop the payload and log it."""
