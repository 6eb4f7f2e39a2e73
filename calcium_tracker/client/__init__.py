# -*- coding: utf-8 -*-
"""
Client module

Photo capture, backend API calls and the submission flow used by the mobile UI.
"""

from .api_client import ApiClient, ApiClientError, CancelToken, fetch_with_logging
from .capture import PhotoCaptureState, PhotoCaptureStore, capture_photo
from .submission import AnswerSelection, SubmissionFlow, answers_from_selection

__all__ = [
    'ApiClient',
    'ApiClientError',
    'CancelToken',
    'fetch_with_logging',
    'PhotoCaptureState',
    'PhotoCaptureStore',
    'capture_photo',
    'AnswerSelection',
    'SubmissionFlow',
    'answers_from_selection',
]
