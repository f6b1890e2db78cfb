"""
Pydantic models for validating the mirror listing returned by the Apache
`closer.lua` endpoint.

These models serve as a strict contract for the expected JSON data, ensuring
that any deviation from this structure is caught at the infrastructure layer
before being passed to the application core.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class MirrorListing(BaseModel):
    """
    Represents the mirror selection for one release directory.

    The endpoint returns more keys than these (`ftp`, `cca2`, ...); they are
    ignored. `preferred` may be missing when the geo lookup fails, and
    `backup` usually holds two entries of which the second is the US site.
    """

    model_config = ConfigDict(extra="ignore")

    preferred: Optional[str] = None
    http: List[str] = []
    backup: List[str] = []
    path_info: str = ""
