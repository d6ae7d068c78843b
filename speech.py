import base64
import io
import json
import logging
import re
import wave

import requests

from utilities.llm import is_error

logger = logging.getLogger(__name__)

TRANSCRIBE_PROMPT = (
    "Transcribe the spoken English in this audio clip exactly as said. "
    "Return ONLY the transcript text. If there is no speech, return an empty string."
)


class SpeechError(Exception):
    """Upstream speech provider failure."""


def _correction_prompt(text):
    return (
        "The following is a raw speech-to-text transcript of a candidate's interview answer. "
        "Fix punctuation, capitalisation and obvious recognition mistakes without changing the meaning "
        "or adding content. Return ONLY the corrected text.\n\n"
        f"Transcript: {text}"
    )


def transcribe(llm, audio: bytes, mime_type: str, correct=True) -> str:
    """Speech to text for one recorded answer.

    The clip goes to the model as inline audio; an optional second call
    tidies the transcript. A failed correction pass keeps the raw transcript.

    Raises:
        SpeechError: when transcription itself fails.
    """
    text = llm.generate_with_audio(TRANSCRIBE_PROMPT, audio, mime_type or 'audio/webm')
    if is_error(text):
        if text:
            raise SpeechError(text)
        return ''
    text = text.strip()
    if correct and text:
        corrected = llm.generate(_correction_prompt(text))
        if is_error(corrected):
            logger.warning("Transcript correction failed; using raw transcript")
        else:
            text = corrected.strip()
    return text


def parse_pcm_config(mime_type=''):
    """Return sample rate/channels for raw L16/PCM audio, None for other formats."""
    normalized = str(mime_type or '').lower()
    if not normalized.startswith('audio/l16') and 'pcm' not in normalized:
        return None
    rate = re.search(r'rate=(\d+)', normalized)
    channels = re.search(r'channels=(\d+)', normalized)
    return {
        'sample_rate': int(rate.group(1)) if rate else 24000,
        'channels': int(channels.group(1)) if channels else 1,
        'sample_width': 2,
    }


def pcm_to_wav(pcm: bytes, sample_rate=24000, channels=1, sample_width=2) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, 'wb') as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


def _iter_sse_payloads(lines):
    for line in lines:
        if isinstance(line, bytes):
            line = line.decode('utf-8', errors='ignore')
        trimmed = (line or '').strip()
        if not trimmed.startswith('data:'):
            continue
        try:
            yield json.loads(trimmed[5:].strip())
        except ValueError:
            continue


def collect_audio(lines):
    """Collect base64 audio chunks from Gemini's SSE stream. Returns (bytes, mime_type)."""
    chunks = []
    mime_type = 'audio/wav'
    for payload in _iter_sse_payloads(lines):
        if payload.get('error'):
            raise SpeechError(payload['error'].get('message') or 'Gemini TTS stream error')
        candidates = payload.get('candidates') or []
        if not candidates:
            continue
        parts = (candidates[0].get('content') or {}).get('parts') or []
        for part in parts:
            inline = part.get('inlineData') or part.get('inline_data') or {}
            if not inline.get('data'):
                continue
            mime_type = inline.get('mimeType') or inline.get('mime_type') or mime_type
            chunks.append(base64.b64decode(inline['data']))
    if not chunks:
        raise SpeechError('Gemini TTS stream returned no audio data')
    return b''.join(chunks), mime_type


class TextToSpeech:
    """Gemini streaming TTS; output is browser-playable audio plus its mime type."""

    provider = 'gemini'

    def __init__(self, settings, timeout=120):
        self.api_key = settings.gemini_api_key
        self.base = settings.gemini_api_base
        self.model = settings.gemini_tts_model
        self.default_voice = settings.gemini_tts_voice
        self.timeout = timeout

    @property
    def configured(self):
        return bool(self.api_key)

    @property
    def url(self):
        return f"{self.base}/v1beta/models/{self.model}:streamGenerateContent?alt=sse"

    def synthesize(self, text, voice_name=None):
        voice_name = voice_name or self.default_voice
        body = {
            'contents': [{'role': 'user', 'parts': [{'text': text}]}],
            'generationConfig': {
                'responseModalities': ['AUDIO'],
                'speechConfig': {'voiceConfig': {'prebuiltVoiceConfig': {'voiceName': voice_name}}},
            },
        }
        headers = {'Content-Type': 'application/json', 'x-goog-api-key': self.api_key}
        try:
            resp = requests.post(self.url, headers=headers, json=body, timeout=self.timeout, stream=True)
        except requests.RequestException as e:
            raise SpeechError(f"Gemini TTS request failed: {e}") from e

        with resp:
            if resp.status_code >= 400:
                raise SpeechError(f"Gemini TTS upstream error ({resp.status_code}): {resp.text[:200]}")
            audio, mime_type = collect_audio(resp.iter_lines())

        pcm = parse_pcm_config(mime_type)
        if pcm:
            return pcm_to_wav(audio, pcm['sample_rate'], pcm['channels'], pcm['sample_width']), 'audio/wav', voice_name
        return audio, mime_type, voice_name
