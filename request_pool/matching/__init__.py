"""
Landlord matching.

Candidate selection, scoring (0-100), match reasons and idempotent
batch creation of match rows.
"""

from .landlord_matcher import LandlordMatcher

__all__ = ['LandlordMatcher']
