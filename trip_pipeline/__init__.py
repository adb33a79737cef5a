"""
Turn pipeline for the voice trip booking agent.

One utterance in, one reply out:
    load session -> STT -> knowledge retrieval -> reasoning -> booking gate
    -> persist session -> TTS -> signal

The reasoning model decides conversation transitions; this package owns the
session state machine guard, the booking gate and the failure policy at every
external boundary.
"""
