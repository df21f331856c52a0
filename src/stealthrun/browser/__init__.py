"""Browser automation modules (Playwright).

Provides the stealth execution engine (``engine``) together with its
building blocks: session profiles (``profiles``), anti-detection launch
arguments and init script (``stealth``), and human-paced timing
(``humanize``).
"""
