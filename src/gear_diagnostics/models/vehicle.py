"""Data models for vehicle context."""

from typing import Optional, List
from pydantic import BaseModel, Field


class VehicleContext(BaseModel):
    """The vehicle a diagnostic request is made for."""

    vehicle_id: str = Field(..., description="Vehicle identifier")
    user_id: str = Field(..., description="Owning user")

    vin: str = Field(default="", description="17-character Vehicle Identification Number, may be empty")
    make: str = Field(default="Unknown")
    model: str = Field(default="Unknown")
    year: Optional[int] = Field(default=None, description="Model year")
    trim: Optional[str] = Field(default=None)

    mileage: Optional[int] = Field(default=None, ge=0, description="Current odometer reading")

    @staticmethod
    def validate_vin(vin: str) -> List[str]:
        """
        Validate VIN format.

        Args:
            vin: VIN string, normalized to upper case first

        Returns:
            List of validation errors, empty if the VIN is valid
        """
        vin = vin.upper().strip()
        errors = []

        if len(vin) != 17:
            errors.append(f"VIN must be 17 characters (got {len(vin)})")

        # VINs cannot contain I, O, or Q
        invalid_chars = set(vin) & {"I", "O", "Q"}
        if invalid_chars:
            errors.append(f"VIN contains invalid characters: {sorted(invalid_chars)}")

        if not vin.isalnum():
            errors.append("VIN must contain only letters and numbers")

        return errors

    @property
    def has_valid_vin(self) -> bool:
        return bool(self.vin) and not self.validate_vin(self.vin)

    @property
    def description(self) -> str:
        """Human-readable summary, e.g. '2018 Honda Civic EX'."""
        parts = []
        if self.year:
            parts.append(str(self.year))
        parts.append(self.make)
        parts.append(self.model)
        if self.trim:
            parts.append(self.trim)
        return " ".join(parts)

    def __str__(self) -> str:
        if self.mileage is not None:
            return f"{self.description} ({self.mileage:,} mi)"
        return self.description
