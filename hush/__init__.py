"""
mINd-HUSh — focus-session notification triage agent.
Watches the local notification store during focus, interrupts only for
urgent items, and batches everything else into one end-of-session summary.
"""

__version__ = '1.0.0'
