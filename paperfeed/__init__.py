"""
paperfeed core package.

Modules
───────
models      — Pydantic data models (Paper, PaperSummary, Digest)
errors      — fault taxonomy shared by every network boundary
retry       — RetryPolicy, CancelToken, retry-with-backoff executor
transport   — requests wrapper that tags HTTP faults
topics      — TopicSet and the multi-topic query merger
fetcher     — arXiv Atom source
summarizer  — Claude ranking/summarisation call
digest      — model JSON → Digest with index remapping
batching    — count- and size-bounded batching, sentence-aware truncation
render      — plain-text and HTML renderings of a digest
publishers  — stdout / email / web publishers and the publisher factory
discord     — Discord webhook publisher
runner      — fetch → summarize → publish state machine
"""
