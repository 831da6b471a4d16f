from rosetta_gateway.buffered.fixer import BufferedResponseFixer

__all__ = ["BufferedResponseFixer"]
