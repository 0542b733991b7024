"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .catalog import *  # noqa: F403
from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .inventory import *  # noqa: F403
from .payment import *  # noqa: F403
from .policy import *  # noqa: F403
