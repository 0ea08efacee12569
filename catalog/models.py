"""
catalog/models.py -- Domain dataclass for the product catalog.

Pure data container with zero logic. Ownership checks live in auth/policy.py;
persistence lives in catalog/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Product:
    """A product listed by a user.

    owner_id is the id of the creating user. It is set once on insert and
    never written again -- it is the sole input to the owner-or-admin check.

    id is None before the record is written to the database.
    """

    name: str
    price: float
    owner_id: str
    description: Optional[str] = None
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
