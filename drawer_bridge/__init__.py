"""
Drawer Bridge: PIN-gated cash drawer opener for network receipt printers.
"""

__version__ = '1.0.0'
