"""
Auto-reply pipeline pieces.

- dedup: drops redelivered messages
- mentions: bot mention detection and stripping
- chunking: splits replies to the server's size limit
- queue / dispatch: ordered delivery per conversation
- typing_indicator: keeps "typing..." alive while a reply is generated
"""
