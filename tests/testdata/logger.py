"""Fixture: a module with classes, methods and constants. Parsed, never imported.

@luafunc too_early
"""


def orphan():
    """Exported before any module marker, so it is ignored.

    @luafunc orphan
    """


def load_log_module(lua):
    """Load the log module.

    @luamodule log
    """


DEFAULT_LEVEL = "info"
"""@luaconst DEFAULT_LEVEL string level used when none is given"""


def new_logger(name):
    """Create a named logger.

    @luafunc new
    @luaparam name string logger name
    @luareturn log.Logger
    """


def _helper():
    """Plain documentation without export tags."""


class Logger:
    """A named logger.

    @luaclass log.Logger
    @luafield name string logger name
    @luafield level string
    """

    def info(self, msg):
        """Log at info level.

        @luamethod log.Logger info
        @luaparam self log.Logger
        @luaparam msg string message
        """

    def with_field(self, key, value):
        """@luamethod log.Logger with_field
        @luaparam self log.Logger
        @luaparam key string
        @luaparam value any
        @luareturn log.Logger a derived logger
        """


async def flush():
    """Flush pending records.

    @luafunc flush
    """
