"""
This module provides classes and functions for checking the completeness and
validity of bags.
"""
from .base import (ALL, ERROR, WARN, ValidationIssue, ValidationResults,
                   BagPackValidationError)
from .bag import (BagValidator, validate, PAYLOAD_COMPLETE, PAYLOAD_DECLARED,
                  CHECKSUMS)
