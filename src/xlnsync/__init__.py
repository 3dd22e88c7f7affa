# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""xlnsync - real-time state synchronization for the XLN network graph.

A client keeps a mirror of the network (jurisdictions, depositaries,
entities, accounts and the channels between them) current from a live
update stream:

  Transport (WebSocket, or a simulated stream when unreachable)
    -> Dispatcher (decodes frames once into typed events)
    -> Reconciler (snapshots, deltas, metrics; referential integrity)
    -> Consensus scheduler (ordered, paced consensus events)

CLI entry point: ``xlnsync``
"""

__version__ = "0.1.0"
