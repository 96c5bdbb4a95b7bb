"""Reverie pattern modules - dream classification, theme counts, nightmare and recurring-cycle ledgers."""
from .schemas import DreamPattern, NightmarePattern, RecurringCycleView, ReverieError
from .events import bus, Events
