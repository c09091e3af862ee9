"""
delegation.state — record layouts stored in program-owned cells.
"""

from .records import (
    DISCRIMINATOR_LEN,
    AccountDiscriminator,
    CommitRecord,
    DelegationMetadata,
    DelegationRecord,
    ProgramConfig,
    metadata_size_for,
)

__all__ = [
    "DISCRIMINATOR_LEN",
    "AccountDiscriminator",
    "CommitRecord",
    "DelegationMetadata",
    "DelegationRecord",
    "ProgramConfig",
    "metadata_size_for",
]
