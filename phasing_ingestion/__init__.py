"""
phasing_ingestion -- Boundary parsing of host plan documents.

Turns loosely-typed rows (numbers as strings, blanks for "not entered",
unknown enum spellings) into validated kernel records before anything
reaches an engine.

Architecture:
    phasing_ingestion/ is a top-level package. Nothing in kernel/ or
    engines/ imports from ingestion.
"""
