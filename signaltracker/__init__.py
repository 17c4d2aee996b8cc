"""World Signal Tracker: signal-to-stake P&L aggregation"""
