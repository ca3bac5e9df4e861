from media_triage.classifier import MediaTypeClassifier, extension_of
from media_triage.config import FileTypes
from media_triage.models import MediaType

def test_classify_default_categories():
    c = MediaTypeClassifier()
    assert c.classify(".jpg") == MediaType.IMAGE
    assert c.classify(".pdf") == MediaType.DOCUMENT
    assert c.classify(".mkv") == MediaType.VIDEO
    assert c.classify(".flac") == MediaType.AUDIO

def test_classify_is_case_insensitive():
    c = MediaTypeClassifier()
    assert c.classify(".JPG") == MediaType.IMAGE
    assert c.classify(".Mp3") == MediaType.AUDIO

def test_classify_unknown_and_malformed():
    c = MediaTypeClassifier()
    assert c.classify(".xyz") is None
    assert c.classify("") is None
    # No dot, no extension
    assert c.classify("jpg") is None
    assert c.classify(".") is None

def test_classify_uses_last_dot_only():
    c = MediaTypeClassifier()
    assert c.classify(".backup.jpeg") == MediaType.IMAGE
    assert c.classify(".tar.gz") is None

def test_classify_name():
    c = MediaTypeClassifier()
    assert c.classify_name("Holiday.PNG") == MediaType.IMAGE
    assert c.classify_name("README") is None
    assert c.classify_name(".mp4") is None

def test_extension_of():
    assert extension_of("photo.JPG") == ".jpg"
    assert extension_of("archive.tar.gz") == ".gz"
    assert extension_of("Makefile") == ""
    assert extension_of(".bashrc") == ""

def test_custom_file_types():
    types = FileTypes(images=[".heic"], documents=[], videos=[], audio=[".MID"])
    c = MediaTypeClassifier(types)
    assert c.classify(".heic") == MediaType.IMAGE
    assert c.classify(".mid") == MediaType.AUDIO
    assert c.classify(".jpg") is None
