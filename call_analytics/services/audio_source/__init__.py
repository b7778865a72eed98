from call_analytics.services.audio_source.resolver import AudioSource, AudioSourceResolver

__all__ = ["AudioSource", "AudioSourceResolver"]
