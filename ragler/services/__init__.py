"""Business logic for ragler.

Leaves first: token counting and the two chunkers, then the draft session
store and state machine built on them, then ingestion and the publish
engine that move sessions in and out of the draft area.  The collection
service owns the registry of target collections and the read side over
published entries.
"""
