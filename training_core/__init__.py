"""Core (UI-agnostic) training dashboard logic.

This package contains:
- data loading (published CSV export -> pandas record store)
- filter normalization and the filter engine
- aggregation functions (plain, JSON-serializable rows)
- the table view state machine (search / sort / paginate)
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
