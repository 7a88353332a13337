# voicelist - Spoken shopping lists

"""
Turns spoken utterances into normalized text for list entry.
Listens continuously on-device with Vosk, or records a clip for the
OpenAI Whisper API.
"""

__version__ = "0.1.0"
__app_name__ = "voicelist"
