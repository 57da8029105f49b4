"""
API Module - Read-only HTTP view of a peer node
"""

from .rest import create_app, run_api_server

__all__ = ['create_app', 'run_api_server']
