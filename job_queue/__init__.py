"""
Job Queue — consumer-side dispatch of queued work.

A worker pulls deliveries from a transport, the Processor resolves the
callable named in each payload, runs it, and returns a Disposition
(acknowledge / reject / requeue) that the transport then applies.
Lifecycle notifications go to an injected event sink.
"""
