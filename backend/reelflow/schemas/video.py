"""Pydantic schemas for video generation and batch operations"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class HeyGenConfig(BaseModel):
    """Avatar/voice selection shared by every HeyGen item"""
    type: Literal["heygen"]
    avatar_id: str = Field(min_length=1)
    voice_id: Optional[str] = None
    background_url: Optional[str] = None


class KlingConfig(BaseModel):
    """Model/aspect-ratio/duration selection shared by every Kling item"""
    type: Literal["kling"]
    model_version: Literal["1.5", "1.6", "2.1", "2.5", "2.6"] = "1.6"
    aspect_ratio: Literal["16:9", "9:16", "1:1"] = "9:16"
    quality: Literal["standard", "pro"] = "standard"
    duration: Literal[5, 10] = 5
    enable_audio: Optional[bool] = None


GenerationConfig = Annotated[Union[HeyGenConfig, KlingConfig], Field(discriminator="type")]


class BatchItemInput(BaseModel):
    """One CSV row"""
    title: Optional[str] = None
    script: Optional[str] = None  # HeyGen
    prompt: Optional[str] = None  # Kling
    image_url: Optional[str] = None  # Kling image-to-video
    product_id: Optional[str] = None


class CreateVideoRequest(BatchItemInput):
    config: GenerationConfig


class CreateBatchRequest(BaseModel):
    type: Literal["heygen", "kling"]
    name: Optional[str] = Field(default=None, max_length=200)
    config: GenerationConfig
    items: List[BatchItemInput]


class VideoStatusResponse(BaseModel):
    id: int
    status: str
    progress: int
    message: str
    remote_url: Optional[str] = None
    error_message: Optional[str] = None
    should_continue_polling: bool


class CancelResponse(BaseModel):
    success: bool
    message: str


class BatchItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_job_id: int
    item_index: int
    status: str
    video_id: Optional[int] = None
    config: dict
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class BatchSummary(BaseModel):
    id: int
    type: str
    name: Optional[str] = None
    status: str
    total_count: int
    completed_count: int
    failed_count: int
    progress: int
    created_at: datetime


class BatchStatusResponse(BatchSummary):
    items: List[BatchItemResponse]
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    should_continue_polling: bool


class BatchCreated(BaseModel):
    id: int
    total_count: int
    status: str


class CreateBatchResponse(BaseModel):
    batch_job: BatchCreated
