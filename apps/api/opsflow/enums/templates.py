"""Template-related enums."""

from enum import Enum


class TemplateType(str, Enum):
    """Template audience."""

    STANDARD = "standard"
    ENTERPRISE = "enterprise"
    SMB = "smb"
