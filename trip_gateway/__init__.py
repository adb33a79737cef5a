"""
HTTP gateway for the trip booking agent.

Routes:
- POST /transcribe   one voice turn (multipart: file, name, phone, id)
- POST /ingest       add/replace a knowledge document
- GET  /token        LiveKit join token for the caller's room
- GET  /audio/{f}    synthesized replies
- GET  /control/...  read API over sessions and turn events
"""
