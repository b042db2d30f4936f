"""
Noto Core - 基础工具层

- identifiers: canonical id generation, validation and repair
- timeutil: UTC timestamp helpers
- debounce: rearmable background action timer
- observers: ordered change-notification registry
"""
