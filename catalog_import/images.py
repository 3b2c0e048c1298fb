"""
Image Pipeline Module
Uploads referenced images to the media host and links them to products.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional
from loguru import logger

from .exceptions import MediaDeleteError, MediaUploadError, StoreError
from .media import MediaHostClient
from .models import IMAGES, PRODUCTS, CandidateProduct, ProductImage


@dataclass
class ImageSource:
    """An image URL referenced by a source record."""

    url: str
    alt_text: str = ''


@dataclass
class ImageOutcome:
    """Counters and errors from attaching one product's images."""

    processed: int = 0
    uploaded: int = 0
    failed: int = 0
    primary_url: Optional[str] = None
    errors: List[str] = field(default_factory=list)


def image_sources(candidate: CandidateProduct) -> List[ImageSource]:
    """
    List the images a candidate references, product image first.

    Per-row alt texts from a Shopify export are kept. Duplicate URLs are
    listed once.

    Args:
        candidate: Candidate product

    Returns:
        Image sources in reference order
    """
    alt_texts = {o.image_url: o.image_alt for o in candidate.options if o.image_url}
    sources = []
    seen = set()
    for url in candidate.image_urls:
        if url in seen:
            continue
        seen.add(url)
        sources.append(ImageSource(url=url, alt_text=alt_texts.get(url) or candidate.name))
    return sources


class ImagePipeline:
    """Attach images to products, uploading them to the media host first."""

    def __init__(
        self,
        store,
        media: Optional[MediaHostClient] = None,
        on_image: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize the image pipeline.

        Args:
            store: Catalog store
            media: Media host client; without one, source URLs are linked as they are
            on_image: Called after every image is processed, for progress reporting
        """
        self.store = store
        self.media = media
        self.on_image = on_image

    async def attach_images(
        self,
        product_id: str,
        sources: List[ImageSource],
        row_number: int,
    ) -> ImageOutcome:
        """
        Upload and link a product's images.

        URLs the product already has are skipped. The first image linked to
        a product without images becomes primary; sort order continues after
        the existing images. A failing image is recorded and the rest still
        run.

        Args:
            product_id: Product the images belong to
            sources: Images referenced by the record
            row_number: Row number for error reporting

        Returns:
            ImageOutcome for the product
        """
        outcome = ImageOutcome()
        existing = await self.store.select(IMAGES, product_id=product_id)
        known_urls = {row['image_url'] for row in existing}
        has_primary = any(row.get('is_primary') for row in existing)
        next_order = max((row.get('sort_order') or 0 for row in existing), default=0) + 1

        for source in sources:
            outcome.processed += 1
            try:
                if source.url in known_urls:
                    logger.debug(f"Image already linked to product {product_id}: {source.url}")
                    continue

                hosted_url = source.url
                if self.media:
                    hosted_url = await self.media.upload(source.url)
                    if hosted_url != source.url:
                        outcome.uploaded += 1
                if hosted_url in known_urls:
                    continue

                image = ProductImage(
                    product_id=product_id,
                    image_url=hosted_url,
                    is_primary=not has_primary,
                    sort_order=next_order,
                    alt_text=source.alt_text,
                )
                await self.store.insert(IMAGES, image.to_row())
                known_urls.update({source.url, hosted_url})
                next_order += 1
                if not has_primary:
                    has_primary = True
                    outcome.primary_url = hosted_url
            except (MediaUploadError, StoreError) as e:
                outcome.failed += 1
                message = f"Row {row_number}: Image {source.url} failed: {e}"
                outcome.errors.append(message)
                logger.error(message)
            finally:
                if self.on_image:
                    self.on_image()

        return outcome

    async def delete_image(self, image_id: str) -> None:
        """
        Delete a product image from the interactive editor.

        The database row goes first; removing the hosted asset afterwards is
        best effort and a failure there is only logged. When the primary
        image is deleted the next image in sort order takes over.

        Args:
            image_id: Id of the ProductImage row

        Raises:
            StoreError: if the row does not exist or cannot be deleted
        """
        image = await self.store.find_one(IMAGES, id=image_id)
        if image is None:
            raise StoreError(f"No image with id {image_id}", status_code=404)

        await self.store.delete(IMAGES, image_id)
        logger.info(f"Deleted image {image_id} of product {image['product_id']}")

        if image.get('is_primary'):
            await self._promote_next_primary(image['product_id'])

        if self.media and self.media.is_hosted(image['image_url']):
            try:
                await self.media.delete(image['image_url'])
            except MediaDeleteError as e:
                logger.warning(f"Image row {image_id} deleted but hosted asset was kept: {e}")

    async def _promote_next_primary(self, product_id: str) -> None:
        remaining = await self.store.select(IMAGES, product_id=product_id)
        if not remaining:
            await self.store.update(PRODUCTS, product_id, {'image_url': None})
            return
        remaining.sort(key=lambda row: row.get('sort_order') or 0)
        successor = remaining[0]
        await self.store.update(IMAGES, successor['id'], {'is_primary': True})
        await self.store.update(PRODUCTS, product_id, {'image_url': successor['image_url']})
