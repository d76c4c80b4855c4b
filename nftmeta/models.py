"""
Marketplace data models.
Field aliases match the JSON the browser client expects.
"""

from enum import Enum
from typing import Optional, List, Any
from pydantic import BaseModel, Field


class SortField(str, Enum):
    """Listing sort keys."""
    PRICE = "price"
    CREATED_AT = "createdAt"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortField":
        """Map a query value to a sort key; unknown values sort by creation time."""
        if value == cls.PRICE.value:
            return cls.PRICE
        return cls.CREATED_AT


class SortOrder(str, Enum):
    """Sort direction."""
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortOrder":
        """Anything other than "asc" sorts descending."""
        if value == cls.ASC.value:
            return cls.ASC
        return cls.DESC


class NFTMetadata(BaseModel):
    """
    Token metadata document.

    Unknown fields of the remote document are kept as-is, so a resolved
    document serializes back to what the token's metadata URI returned
    (apart from the normalized image URL). Known fields are not type-checked;
    `attributes` is normally a list of {trait_type, value} objects but is
    passed through in whatever shape the document uses.
    """
    name: Any = None
    description: Any = None
    image: Any = None
    attributes: Any = None

    class Config:
        extra = "allow"

    def to_dict(self) -> dict:
        """Dump only the fields that were present in the source document."""
        data = self.model_dump(mode="json")
        present = set(self.model_fields_set) | set(self.model_extra or {})
        return {key: value for key, value in data.items() if key in present}


class Listing(BaseModel):
    """Marketplace listing."""
    listing_id: int = Field(alias="listingId")
    seller: str
    nft_contract: str = Field(alias="nftContract")
    token_id: int = Field(alias="tokenId")
    price: str
    active: bool = True
    created_at: int = Field(alias="createdAt")

    class Config:
        populate_by_name = True


class SearchCriteria(BaseModel):
    """Listing search filters, sort and page."""
    price_min: Optional[float] = Field(default=None, alias="priceMin")
    price_max: Optional[float] = Field(default=None, alias="priceMax")
    collection: Optional[str] = None
    seller: Optional[str] = None
    token_id: Optional[int] = Field(default=None, alias="tokenId")
    sort_by: SortField = Field(default=SortField.CREATED_AT, alias="sortBy")
    sort_order: SortOrder = Field(default=SortOrder.DESC, alias="sortOrder")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    class Config:
        populate_by_name = True


class Pagination(BaseModel):
    """Page position within a search result."""
    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")

    class Config:
        populate_by_name = True


class SearchPage(BaseModel):
    """One page of listings."""
    listings: List[Listing] = Field(default_factory=list)
    pagination: Pagination


class CollectionInfo(BaseModel):
    """Token collection name and symbol."""
    address: str
    name: str
    symbol: str


class HealthStatus(BaseModel):
    """Liveness probe payload."""
    status: str
    timestamp: str
    network: str


class ErrorResponse(BaseModel):
    """Error payload returned by the API."""
    error: str
    details: Optional[str] = None
