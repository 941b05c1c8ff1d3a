import io
import os
import shutil
import tempfile
import unittest

from werkzeug.datastructures import FileStorage

from errors import FileTooLarge, InvalidFileType, StorageWriteError
from tests.base import PNG_BYTES, ApiTestCase, image
from uploads import ImageStore, allowed_extension, allowed_mimetype


def upload(data=PNG_BYTES, filename='photo.png', content_type='image/png'):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


class AllowListTests(unittest.TestCase):
    def test_extensions(self):
        for name in ('a.png', 'a.PNG', 'a.jpg', 'a.JpEg', 'dir.v2/a.jpeg'):
            self.assertTrue(allowed_extension(name), name)
        for name in ('a.gif', 'a', 'png', 'a.png.exe', '', None):
            self.assertFalse(allowed_extension(name), name)

    def test_mimetypes(self):
        for mimetype in ('image/png', 'image/jpeg', 'image/jpg', 'IMAGE/PNG'):
            self.assertTrue(allowed_mimetype(mimetype), mimetype)
        for mimetype in ('image/gif', 'application/png', 'text/plain', '', None):
            self.assertFalse(allowed_mimetype(mimetype), mimetype)


class ImageStoreTests(unittest.TestCase):
    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.store = ImageStore(self.root, max_size=1024)

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def stored_files(self, subdir):
        path = os.path.join(self.root, subdir)
        return sorted(os.listdir(path)) if os.path.isdir(path) else []

    def test_ingest_writes_file_and_returns_url(self):
        url = self.store.ingest(upload(), 'posts', 'post')
        filename = url.rsplit('/', 1)[1]
        self.assertTrue(url.startswith('/uploads/posts/post-'))
        self.assertTrue(filename.endswith('.png'))
        with open(os.path.join(self.root, 'posts', filename), 'rb') as fh:
            self.assertEqual(fh.read(), PNG_BYTES)

    def test_keeps_original_extension(self):
        url = self.store.ingest(upload(filename='ME.JPG', content_type='image/jpeg'),
                                'profiles', 'user')
        self.assertTrue(url.startswith('/uploads/profiles/user-'))
        self.assertTrue(url.endswith('.JPG'))

    def test_names_do_not_collide(self):
        urls = {self.store.ingest(upload(), 'posts', 'post') for _ in range(5)}
        self.assertEqual(len(urls), 5)
        self.assertEqual(len(self.stored_files('posts')), 5)

    def test_recreates_missing_directory(self):
        self.store.ensure_directories()
        shutil.rmtree(os.path.join(self.root, 'posts'))
        self.store.ingest(upload(), 'posts', 'post')
        self.assertEqual(len(self.stored_files('posts')), 1)

    def test_rejects_disallowed_extension(self):
        with self.assertRaises(InvalidFileType):
            self.store.ingest(upload(filename='anim.gif', content_type='image/png'), 'posts', 'post')
        self.assertEqual(self.stored_files('posts'), [])

    def test_rejects_mismatched_content_type(self):
        with self.assertRaises(InvalidFileType):
            self.store.ingest(upload(content_type='image/gif'), 'posts', 'post')
        self.assertEqual(self.stored_files('posts'), [])

    def test_rejects_oversized_file(self):
        with self.assertRaises(FileTooLarge):
            self.store.ingest(upload(data=b'x' * 1025), 'posts', 'post')
        self.assertEqual(self.stored_files('posts'), [])

    def test_accepts_file_at_limit(self):
        self.store.ingest(upload(data=b'x' * 1024), 'posts', 'post')
        self.assertEqual(len(self.stored_files('posts')), 1)

    def test_write_failure(self):
        blocker = os.path.join(self.root, 'blocker')
        with open(blocker, 'w') as fh:
            fh.write('not a directory')
        store = ImageStore(blocker, max_size=1024)
        with self.assertRaises(StorageWriteError):
            store.ingest(upload(), 'posts', 'post')

    def test_discard_removes_file(self):
        url = self.store.ingest(upload(), 'posts', 'post')
        self.store.discard(url)
        self.assertEqual(self.stored_files('posts'), [])
        # already gone is fine
        self.store.discard(url)


class UploadEndpointTests(ApiTestCase):
    def test_startup_creates_directories(self):
        self.assertTrue(os.path.isdir(os.path.join(self.upload_dir, 'posts')))
        self.assertTrue(os.path.isdir(os.path.join(self.upload_dir, 'profiles')))

    def test_uploaded_image_is_served(self):
        _, token = self.create_user()
        post = self.create_post(token, image=image())
        self.assertTrue(post['image'].startswith('/uploads/posts/post-'))

        response = self.client.get('/api' + post['image'])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, PNG_BYTES)
        response.close()

    def test_gif_rejected_before_write(self):
        _, token = self.create_user()
        response = self.client.post(
            '/api/posts', headers=self.auth(token), content_type='multipart/form-data',
            data={'title': 'T', 'content': 'C', 'image': image(filename='a.gif', content_type='image/gif')})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(os.listdir(os.path.join(self.upload_dir, 'posts')), [])
        self.assertEqual(self.client.get('/api/posts').get_json()['total'], 0)

    def test_oversized_upload_rejected(self):
        _, token = self.create_user()
        too_big = b'x' * (self.app.config['MAX_UPLOAD_SIZE'] + 1)
        response = self.client.post(
            '/api/posts', headers=self.auth(token), content_type='multipart/form-data',
            data={'title': 'T', 'content': 'C', 'image': image(data=too_big)})
        self.assertEqual(response.status_code, 413)
        self.assertEqual(os.listdir(os.path.join(self.upload_dir, 'posts')), [])

    def test_body_over_transport_limit_rejected(self):
        _, token = self.create_user()
        too_big = b'x' * (self.app.config['MAX_CONTENT_LENGTH'] + 1)
        response = self.client.post(
            '/api/posts', headers=self.auth(token), content_type='multipart/form-data',
            data={'title': 'T', 'content': 'C', 'image': image(data=too_big)})
        self.assertEqual(response.status_code, 413)
        self.assertIn('message', response.get_json())
        self.assertEqual(os.listdir(os.path.join(self.upload_dir, 'posts')), [])

    def test_missing_upload_is_404(self):
        response = self.client.get('/api/uploads/posts/nothing.png')
        self.assertEqual(response.status_code, 404)


if __name__ == '__main__':
    unittest.main()
