from .gap_fill import fill_minute_gaps, minute_index

__all__ = ["fill_minute_gaps", "minute_index"]
