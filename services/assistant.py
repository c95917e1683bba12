"""Voice assistant configuration sent to the voice SDK when a call starts."""

VOICES = {
    "male": {"casual": "2BJW5coyhAzSr8STdHbE", "formal": "c6SfcYrb2t09NHXiT80T"},
    "female": {"casual": "ZIlrSGI4jZqobxRKprJz", "formal": "sVB3fOdw9SdRNDcDcgeP"},
}

SYSTEM_PROMPT = """You are a highly knowledgeable tutor teaching a real-time voice session with a student. Your goal is to teach the student about the topic and subject.

Tutor Guidelines:
Stick to the given topic - {{ topic }} and subject - {{ subject }} and teach the student about it.
Keep the conversation flowing smoothly while maintaining control.
From time to time make sure that the student is following you and understands you.
Break down the topic into smaller parts and teach the student one part at a time.
Keep your style of conversation {{ style }}.
Keep your responses short, like in a real voice conversation.
Do not include any special characters in your responses - this is a voice conversation."""


def configure_assistant(voice: str, style: str) -> dict:
    voice_id = VOICES.get(voice, {}).get(style, "sarah")

    return {
        "name": "Companion",
        "firstMessage": "Hello, let's start the session. Today we'll be talking about {{topic}}.",
        "transcriber": {
            "provider": "deepgram",
            "model": "nova-3",
            "language": "en",
        },
        "voice": {
            "provider": "11labs",
            "voiceId": voice_id,
            "stability": 0.4,
            "similarityBoost": 0.8,
            "speed": 1,
            "style": 0.5,
            "useSpeakerBoost": True,
        },
        "model": {
            "provider": "openai",
            "model": "gpt-4",
            "messages": [{"role": "system", "content": SYSTEM_PROMPT}],
        },
        "clientMessages": [],
        "serverMessages": [],
    }


def build_assistant_overrides(subject: str, topic: str, style: str) -> dict:
    return {
        "variableValues": {"subject": subject, "topic": topic, "style": style},
        "clientMessages": ["transcript"],
        "serverMessages": [],
    }
