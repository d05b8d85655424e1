from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    model_url: str = Field(
        ...,
        description="Location of the TorchScript model (https://, azure://, file:// or path)"
    )
    image_size: int = Field(
        default=224,
        ge=1,
        description="Square input size expected by the hosted model"
    )
    threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Probabilities strictly above this are classified as Cancer"
    )
    max_upload_bytes: int = Field(
        default=1_000_000,
        ge=1,
        description="Largest accepted image payload in bytes"
    )
    max_image_pixels: int = Field(
        default=4096 * 4096,
        ge=1,
        description="Largest accepted width x height before decoding"
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Threads available for inference"
    )
    inference_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds before a single prediction is abandoned"
    )
    model_load_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Seconds allowed for fetching and loading the model"
    )

    store_backend: Literal["firestore", "memory", "none"] = Field(
        default="firestore",
        description="Where prediction records are persisted"
    )
    store_collection: str = Field(
        default="predictions",
        description="Collection holding prediction records"
    )
    store_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds allowed for a single store call"
    )
    firestore_project: Optional[str] = Field(
        default=None,
        description="Google Cloud project; ambient project when unset"
    )
    firestore_credentials: Optional[str] = Field(
        default=None,
        description="Path to a service account JSON file; ambient credentials when unset"
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    log_level: str = Field(default="info")
    log_json: bool = Field(default=False)

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "protected_namespaces": ("settings_",),
    }


def get_settings() -> Settings:
    return Settings()
