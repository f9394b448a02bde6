"""punchlist_shared — Shared utilities for the punchlist Lambda functions.

Provides:
    - Explicit configuration object (env + Secrets Manager fallback)
    - Error taxonomy mapped to HTTP status codes
    - HTTP response helpers with CORS
    - Supabase PostgREST accessor
    - Diff calculation, punchlist persistence, branding and PDF rendering
"""

__version__ = "1.0.0"
