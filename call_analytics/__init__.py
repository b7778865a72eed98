"""
Call analytics client.

Submits audio recordings to a remote speech analytics service, waits for the
asynchronous batch job to finish, and downloads its output artifacts.
"""

__version__ = "1.0.0"
