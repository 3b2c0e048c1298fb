"""
Tests for Image Pipeline Module
"""

import asyncio
import json

import httpx

from catalog_import.images import ImagePipeline, ImageSource, image_sources
from catalog_import.media import MediaHostClient
from catalog_import.models import IMAGES, PRODUCTS, CandidateProduct, OptionRow
from catalog_import.store import MemoryCatalogStore

HOST = 'https://res.cloudinary.com/demo/image/upload'


def fake_media(fail_urls=(), delete_status=200):
    """Media client whose upload endpoint rehosts URLs and fails for ``fail_urls``."""
    calls = {'upload': [], 'delete': []}

    def handler(request):
        payload = json.loads(request.content)
        if request.method == 'DELETE':
            calls['delete'].append(payload['publicId'])
            return httpx.Response(delete_status, json={'success': delete_status == 200})
        source = payload['imageUrl']
        calls['upload'].append(source)
        if source in fail_urls:
            return httpx.Response(500, json={'error': 'Upload failed'})
        name = source.rsplit('/', 1)[-1]
        return httpx.Response(200, json={'url': f"{HOST}/v1/products/{name}"})

    client = MediaHostClient(
        upload_url='https://shop.example.com/upload',
        delete_url='https://shop.example.com/delete',
        retry_delay=0,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return client, calls


class TestImageSources:
    """Test cases for image_sources."""

    def test_order_dedupe_and_alt_text(self):
        candidate = CandidateProduct(
            row_number=1,
            name='Sunset',
            image_urls=['https://a.com/1.jpg', 'https://a.com/2.jpg', 'https://a.com/1.jpg'],
            options=[OptionRow(image_url='https://a.com/2.jpg', image_alt='Side view')],
        )

        sources = image_sources(candidate)

        assert [s.url for s in sources] == ['https://a.com/1.jpg', 'https://a.com/2.jpg']
        assert sources[0].alt_text == 'Sunset'
        assert sources[1].alt_text == 'Side view'


class TestImagePipeline:
    """Test cases for ImagePipeline."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = MemoryCatalogStore({PRODUCTS: [{'id': 'p1', 'name': 'Sunset', 'image_url': None}]})

    def test_first_image_is_primary(self):
        media, calls = fake_media()
        pipeline = ImagePipeline(self.store, media)
        sources = [ImageSource('https://a.com/1.jpg'), ImageSource('https://a.com/2.jpg')]

        outcome = asyncio.run(pipeline.attach_images('p1', sources, 1))

        images = sorted(self.store.rows(IMAGES), key=lambda r: r['sort_order'])
        assert [img['is_primary'] for img in images] == [True, False]
        assert [img['sort_order'] for img in images] == [1, 2]
        assert images[0]['image_url'] == f"{HOST}/v1/products/1.jpg"
        assert outcome.processed == 2
        assert outcome.uploaded == 2
        assert outcome.failed == 0
        assert outcome.primary_url == f"{HOST}/v1/products/1.jpg"

    def test_hosted_image_is_linked_without_upload(self):
        media, calls = fake_media()
        pipeline = ImagePipeline(self.store, media)
        hosted = f"{HOST}/v9/products/already.jpg"

        outcome = asyncio.run(pipeline.attach_images('p1', [ImageSource(hosted)], 1))

        assert calls['upload'] == []
        assert outcome.uploaded == 0
        assert self.store.rows(IMAGES)[0]['image_url'] == hosted

    def test_failed_image_does_not_stop_the_rest(self):
        media, calls = fake_media(fail_urls={'https://a.com/broken.jpg'})
        pipeline = ImagePipeline(self.store, media)
        sources = [ImageSource('https://a.com/broken.jpg'), ImageSource('https://a.com/ok.jpg')]

        outcome = asyncio.run(pipeline.attach_images('p1', sources, 5))

        assert outcome.failed == 1
        assert outcome.uploaded == 1
        assert outcome.errors[0].startswith('Row 5: Image https://a.com/broken.jpg failed')
        # Three attempts for the broken image, one for the good one
        assert calls['upload'].count('https://a.com/broken.jpg') == 3
        images = self.store.rows(IMAGES)
        assert len(images) == 1
        assert images[0]['is_primary'] is True

    def test_malformed_host_replies_fail_each_image(self):
        calls = []

        def handler(request):
            calls.append(json.loads(request.content)['imageUrl'])
            return httpx.Response(200, json=['unexpected'])

        media = MediaHostClient(
            upload_url='https://shop.example.com/upload',
            retry_attempts=1,
            retry_delay=0,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        sources = [ImageSource('https://a.com/1.jpg'), ImageSource('https://a.com/2.jpg')]

        outcome = asyncio.run(ImagePipeline(self.store, media).attach_images('p1', sources, 4))

        assert outcome.failed == 2
        assert outcome.uploaded == 0
        assert calls == ['https://a.com/1.jpg', 'https://a.com/2.jpg']
        assert self.store.rows(IMAGES) == []

    def test_existing_images_keep_primary_and_order(self):
        store = MemoryCatalogStore({IMAGES: [
            {'id': 'i1', 'product_id': 'p1', 'image_url': 'https://a.com/old.jpg', 'is_primary': True, 'sort_order': 1},
        ]})
        pipeline = ImagePipeline(store)
        sources = [ImageSource('https://a.com/old.jpg'), ImageSource('https://a.com/new.jpg')]

        outcome = asyncio.run(pipeline.attach_images('p1', sources, 1))

        images = {img['image_url']: img for img in store.rows(IMAGES)}
        assert len(images) == 2
        assert images['https://a.com/new.jpg']['is_primary'] is False
        assert images['https://a.com/new.jpg']['sort_order'] == 2
        assert outcome.primary_url is None

    def test_progress_callback_per_image(self):
        ticks = []
        pipeline = ImagePipeline(self.store, on_image=lambda: ticks.append(1))

        asyncio.run(pipeline.attach_images('p1', [ImageSource('https://a.com/1.jpg'), ImageSource('https://a.com/2.jpg')], 1))

        assert len(ticks) == 2

    def test_delete_image_survives_remote_failure(self):
        media, calls = fake_media(delete_status=500)
        store = MemoryCatalogStore({
            PRODUCTS: [{'id': 'p1', 'name': 'Sunset', 'image_url': f"{HOST}/v1/products/a.jpg"}],
            IMAGES: [
                {'id': 'i1', 'product_id': 'p1', 'image_url': f"{HOST}/v1/products/a.jpg", 'is_primary': True, 'sort_order': 1},
                {'id': 'i2', 'product_id': 'p1', 'image_url': f"{HOST}/v1/products/b.jpg", 'is_primary': False, 'sort_order': 2},
            ],
        })

        asyncio.run(ImagePipeline(store, media).delete_image('i1'))

        remaining = store.rows(IMAGES)
        assert [img['id'] for img in remaining] == ['i2']
        assert remaining[0]['is_primary'] is True
        assert store.rows(PRODUCTS)[0]['image_url'] == f"{HOST}/v1/products/b.jpg"
        assert calls['delete'] == ['products/a']
