"""
fanout-crawl
并发抓取协调与分页/扇出合并引擎
"""

__version__ = "0.1.0"
