"""Integration package.

External collaborators of the dispatch core: signing-key loading and the
recipient list source.

IMPORTANT:
Run CLI entrypoints via module execution from the repository root, e.g.:
  python3 -m scripts.wallet_cli balance --network sepolia

This avoids Python import-path ambiguity when running files by relative path.
"""
