"""
Error taxonomy for fleetswap.

Venue errors (quote/build) feed the engine's retry loop, safety errors fail an
attempt outright, and monitor errors are either counted (parse) or fatal
(initial cursor).
"""


class FleetSwapError(Exception):
    """Base class for all fleetswap errors."""


class QuoteError(FleetSwapError):
    """Venue unreachable, non-success response, or bonding curve graduated."""


class BuildError(FleetSwapError):
    """Swap transaction could not be constructed."""


class SafetyError(FleetSwapError):
    """Built transaction failed a pre-signing safety check. Never retried."""


class UnexpectedFeePayer(SafetyError):
    pass


class SuspiciousTransfer(SafetyError):
    pass


class ExecutionError(FleetSwapError):
    """Failure anywhere in quote -> build -> sign -> send -> confirm."""


class RPCError(FleetSwapError):
    """JSON-RPC endpoint returned an error payload or was rate limited."""


class ParseError(FleetSwapError):
    """Transaction detail was unfetchable or malformed."""


class FatalMonitorError(FleetSwapError):
    """Copy-trade monitor cannot establish its polling cursor."""


class BotAlreadyRunning(FleetSwapError):
    pass
