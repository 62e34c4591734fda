"""
Shared pytest fixtures for the SolarScope test suite.

No network access is needed: the model is replaced by FakeModelClient, which
replays scripted answers, and storage uses a temporary sqlite file.
"""
import json

import numpy as np
import pytest
from PIL import Image

from database import AnalysisStore
from gemini_client import AIServiceError


class FakeModelClient:
    """
    Stand-in for GeminiClient.

    image_responses are consumed in order by describe_image (classification
    first, then the analysis itself); text_responses by generate_text. An
    Exception instance in either list is raised instead of returned.
    """

    def __init__(self, image_responses=None, text_responses=None):
        self.image_responses = list(image_responses or [])
        self.text_responses = list(text_responses or [])
        self.prompts = []

    @staticmethod
    def _next(responses):
        if not responses:
            raise AIServiceError("No scripted response left")
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def describe_image(self, image_bytes, mime_type, prompt):
        self.prompts.append(prompt)
        return self._next(self.image_responses)

    def generate_text(self, prompt):
        self.prompts.append(prompt)
        return self._next(self.text_responses)


def as_json(payload) -> str:
    return json.dumps(payload)


VALID_ROOF = as_json({"isValid": True, "reason": "Clear aerial view of a house roof"})
INVALID_ROOF = as_json({"isValid": False, "reason": "Image shows a dog"})
VALID_PANEL = as_json({"isValid": True, "reason": "Solar module close-up"})


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def roof_image(tmp_path):
    """Small PNG standing in for an uploaded rooftop photo (aerial by file size)."""
    path = tmp_path / "roof.png"
    Image.new("RGB", (64, 48), (128, 128, 128)).save(path)
    return str(path)


@pytest.fixture
def panel_image(tmp_path):
    path = tmp_path / "panel_7.jpg"
    Image.new("RGB", (64, 48), (20, 40, 90)).save(path, format="JPEG")
    return str(path)


@pytest.fixture
def store(tmp_path):
    store = AnalysisStore(str(tmp_path / "test.db"))
    store.init_schema()
    return store


@pytest.fixture
def installation_payload():
    """Model installation answer with two usable regions and one impossible one."""
    return {
        "totalPanels": 3,
        "coverage": 75,
        "efficiency": 91,
        "confidence": 93,
        "powerOutput": 1.28,
        "orientation": "South (180°), 30° tilt",
        "shadingAnalysis": "Minimal shading from a tree in the late afternoon",
        "notes": "Good candidate roof",
        "roofType": "gable",
        "estimatedRoofArea": 1800,
        "usableRoofArea": 1200,
        "roofSections": [
            {"name": "South Face", "orientation": "South", "tiltAngle": 30,
             "area": 900, "panelCount": 2, "efficiency": 95},
        ],
        "regions": [
            {"x": 0.2, "y": 0.2, "width": 0.08, "height": 0.06, "roofSection": "South Face"},
            {"x": 0.35, "y": 0.2, "width": 0.08, "height": 0.06, "roofSection": "South Face"},
            {"x": 0.0, "y": 0.0, "width": 0.5, "height": 0.5},
        ],
    }
