"""app — Starlette host for the example Slim API."""
