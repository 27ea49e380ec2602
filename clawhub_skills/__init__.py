"""ClawHub Skills - registry-backed skill discovery, install, and guidance."""

__version__ = "0.1.0"

from clawhub_skills.config import Config
from clawhub_skills.service import ClawHubContext

__all__ = ["ClawHubContext", "Config", "__version__"]
