from enum import Enum

from opsfleet.domain.errors import ConfigError


class LbStrategy(Enum):
    """
    Load-balancing strategy of a node group. The CLI only configures it;
    request routing enforces it server-side.
    """
    ROUND_ROBIN = "round-robin"
    GEO = "geo"
    WEIGHTED = "weighted"
    FAILOVER = "failover"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "LbStrategy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ConfigError(
                f"Invalid strategy '{value}'. Must be one of: {valid}"
            ) from None
