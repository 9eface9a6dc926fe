"""
Utility functions module.

Time Semantics:
- Observation timestamps come from block headers and are ALWAYS authoritative
- Wall-clock time is only used for price quotes and bookkeeping
- All timestamps are integer milliseconds since the Unix epoch
"""
