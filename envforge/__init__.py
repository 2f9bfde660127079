"""
envforge — idempotent workstation provisioning.

Converges a machine toward a declared catalog of tools, shell
customizations and applications. Every task is probed first, applied
only when its desired state does not already hold, and re-probed after
apply to confirm convergence. Re-running is always safe.

Usage:
    envforge --help
    envforge --dry-run
    envforge --only docker,vscode --log-path ./run.ndjson
"""

__version__ = "0.1.0"
