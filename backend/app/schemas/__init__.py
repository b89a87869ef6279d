from .job import (
    ExtractAudioRequest, ExtractAudioResponse, JobStatusResponse, WebhookResponse
)
