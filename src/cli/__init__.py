# =============================================================================
# src/cli/__init__.py: CLI Module Overview
# =============================================================================
#
# Standalone command-line tools, run as `python -m src.cli.<module>`.
#
#   PARSE (parse.py)
#      Runs one discovery + extraction run on a seed URL and stages the
#      result for review, exactly as the API's POST /parse would.
#
# CLI modules use argparse, defer heavy imports (src.main) until after
# argument parsing, and build their own components through
# src.main.build_pipeline because they run as one-shot scripts.
# =============================================================================

"""CLI tools for the karaoke-scout pipeline.

- ``python -m src.cli.parse URL``: parse a website or social group and
  stage the result for review.
"""
