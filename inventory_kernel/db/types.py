"""
Module: inventory_kernel.db.types
Responsibility: Annotated column declarations shared by every model so that
    status strings, codes and names have identical widths system-wide.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/ or domain/.

Usage:
    status: Mapped[StatusString] = mapped_column(default="pending")

    A mapped_column() on the right-hand side is merged with the annotated
    declaration.
"""

from typing import Annotated

from sqlalchemy import String
from sqlalchemy.orm import mapped_column

# Lifecycle status stored as its enum value
StatusString = Annotated[str, mapped_column(String(30), nullable=False)]

# Physical unit code (v1 is 8 characters, v2 is 10)
CodeValue = Annotated[str, mapped_column(String(32), nullable=False)]

# Short identifier strings
ShortCode = Annotated[str, mapped_column(String(50), nullable=False)]

# Names and labels
Name = Annotated[str, mapped_column(String(200), nullable=False)]
