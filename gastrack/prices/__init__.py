"""
Oracle price sources and the per-token price poller.
"""
