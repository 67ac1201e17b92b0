"""
A subpackage for accessing a finished bag's contents.

The :py:mod:`bagit` module provides the read-only Bag accessor; the
:py:mod:`exceptions` module provides the errors raised throughout the package.
"""
