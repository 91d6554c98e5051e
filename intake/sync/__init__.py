"""
Spreadsheet sync: the engine, its conflict rule and the interval scheduler.
"""
