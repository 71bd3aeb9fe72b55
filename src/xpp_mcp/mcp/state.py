"""Session state management for MCP server."""
import logging
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from xpp_mcp.config import IndexConfig

if TYPE_CHECKING:
    from xpp_mcp.service import IndexService

logger = logging.getLogger(__name__)


@dataclass
class MCPSessionState:
    """Singleton state for MCP server session."""
    service: Optional["IndexService"] = None
    config: Optional[IndexConfig] = None

    @property
    def is_loaded(self) -> bool:
        """Check if the index service has been opened."""
        return self.service is not None

    def get_service(self) -> "IndexService":
        """Return the index service, opening it from the environment on first use."""
        if self.service is None:
            from xpp_mcp.service import IndexService

            if self.config is None:
                self.config = IndexConfig.from_env()
            logger.info(f"Opening symbol store at {self.config.db_path}")
            self.service = IndexService.from_config(self.config)
        return self.service


_state: Optional[MCPSessionState] = None


def get_state() -> MCPSessionState:
    """Get or create the singleton state instance."""
    global _state
    if _state is None:
        _state = MCPSessionState()
    return _state


def reset_state() -> None:
    """Reset the singleton state (useful for testing)."""
    global _state
    if _state is not None and _state.service is not None:
        _state.service.close()
    _state = None
