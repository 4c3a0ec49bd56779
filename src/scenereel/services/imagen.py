"""Google Imagen API client wrapper via Vertex AI."""

import base64
import binascii
import logging
import mimetypes
from dataclasses import dataclass
from typing import Optional, Protocol

import google.auth
import google.auth.transport.requests
import requests

from ..config import config

logger = logging.getLogger(__name__)

SUPPORTED_ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4")


@dataclass(frozen=True)
class ImagePayload:
    """A synthesized image: raw bytes plus MIME type."""

    data: bytes
    mime_type: str = "image/png"

    @property
    def extension(self) -> str:
        ext = mimetypes.guess_extension(self.mime_type) or ".png"
        return ".jpg" if ext in (".jpe", ".jpeg") else ext


class ImageSynthesizer(Protocol):
    """Text-to-image capability: one prompt in, one image (or nothing) out."""

    def synthesize(self, image_prompt: str) -> Optional[ImagePayload]:
        ...


class ImagenClient:
    """Client wrapper for Google Imagen image generation via Vertex AI.

    `synthesize` makes a single attempt per prompt. A non-200 reply, or a
    reply without image bytes, yields `None`; transport errors propagate.
    """

    TIMEOUT = 120.0

    def __init__(
        self,
        project_id: Optional[str] = None,
        location: Optional[str] = None,
        model: Optional[str] = None,
        aspect_ratio: str = "16:9",
        negative_prompt: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the Imagen client.

        Args:
            project_id: Google Cloud project ID.
            location: GCP region for Vertex AI.
            model: Imagen model name.
            aspect_ratio: Aspect ratio for every generated image.
            negative_prompt: Things to avoid in every image.
            session: HTTP session to reuse across requests.
        """
        self._project_id = project_id or config.google_cloud_project
        self._location = location or config.imagen_location
        self._model = model or config.imagen_model
        self._aspect_ratio = aspect_ratio
        self._negative_prompt = negative_prompt
        self._session = session or requests.Session()
        self._credentials = None

        if not self._project_id:
            raise ValueError("GOOGLE_CLOUD_PROJECT not set")
        if aspect_ratio not in SUPPORTED_ASPECT_RATIOS:
            raise ValueError(
                f"Invalid aspect_ratio: {aspect_ratio}. "
                f"Must be one of {', '.join(SUPPORTED_ASPECT_RATIOS)}"
            )

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self._location}-aiplatform.googleapis.com/v1/"
            f"projects/{self._project_id}/locations/{self._location}/"
            f"publishers/google/models/{self._model}:predict"
        )

    def _access_token(self) -> str:
        if self._credentials is None:
            scopes = ["https://www.googleapis.com/auth/cloud-platform"]
            self._credentials, _ = google.auth.default(scopes=scopes)
        if not self._credentials.valid:
            self._credentials.refresh(google.auth.transport.requests.Request())
        return self._credentials.token

    def synthesize(self, image_prompt: str) -> Optional[ImagePayload]:
        """Generate one image for `image_prompt`.

        Returns:
            The image payload, or None if the service returned no image.
        """
        request_body = {
            "instances": [{"prompt": image_prompt}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": self._aspect_ratio,
            },
        }
        if self._negative_prompt:
            request_body["parameters"]["negativePrompt"] = self._negative_prompt

        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }

        logger.info(f"Generating image with Imagen: {image_prompt[:50]}...")
        response = self._session.post(
            self.endpoint, json=request_body, headers=headers, timeout=self.TIMEOUT
        )

        if response.status_code != 200:
            logger.error(f"Imagen API error {response.status_code}: {response.text[:500]}")
            return None

        return parse_prediction(response.json())


def parse_prediction(data: dict) -> Optional[ImagePayload]:
    """Pull the first image out of an Imagen `:predict` response body."""
    predictions = data.get("predictions") or []
    if not predictions:
        logger.warning("No predictions in Imagen response")
        return None

    encoded = predictions[0].get("bytesBase64Encoded")
    if not encoded:
        logger.warning("No image data in Imagen response")
        return None

    try:
        image_bytes = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Undecodable image data in Imagen response: {e}")
        return None

    return ImagePayload(
        data=image_bytes,
        mime_type=predictions[0].get("mimeType") or "image/png",
    )
