"""Contribution tracker for open-source pull requests.

Keeps a local, versioned mirror of your PRs across repositories:
- classifies each open PR into one actionable status
- scores repositories by how your past contributions went
- vets and ranks new issues to work on
"""

__version__ = "2.0.0"
