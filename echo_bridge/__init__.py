"""
Echo Show bridge for Spacebot.

Turns one voice-assistant turn into a send/poll exchange with a Spacebot
webhook channel and splits the reply into speech and an optional visual
directive for devices with a screen.

Layout:
- conversation: pseudonymous conversation identity per user device
- spacebot_client: send / poll / bounded reply collection
- directives: extraction and sanitization of the embedded visual payload
- prompt: instruction preamble sent with every utterance
- orchestrator: one turn end to end
- adapter: boundary with the voice-dispatch host
"""
