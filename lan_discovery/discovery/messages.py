"""
Discovery Messages

Request/response payloads used by LanDiscovery. Applications with their own
needs can pass any other types (and codecs) to Advertiser/Prober directly.
"""

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ServerRequest(BaseModel):
    """
    Request broadcast by clients.

    Empty by default. Subclass to ask for a game mode, language, etc.
    """
    model_config = ConfigDict(extra='ignore')


class ServerResponse(BaseModel):
    """Reply describing a reachable server."""
    model_config = ConfigDict(extra='ignore')

    # Lets clients collapse answers that arrive through several NICs
    server_id: int

    # Where the server can be reached
    uri: List[str] = Field(default_factory=list)

    # Filled in by the client from the datagram source, never sent
    endpoint: Optional[Tuple[str, int]] = Field(default=None, exclude=True)

    @property
    def host(self) -> Optional[str]:
        return self.endpoint[0] if self.endpoint else None
