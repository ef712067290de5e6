"""
rule_unifier package - Adblock Plus list merger and splitter

Modules:
    fetch_sources: Merge remote lists into the raw cache
    normalize: Sort, dedupe and strip comments/headers
    split: Publish the ruleset as three labeled parts
    pipeline: Main processing pipeline and CLI
"""

__version__ = "1.0.0"
