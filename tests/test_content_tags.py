"""
Tests for content addressing and bundle tag naming
"""
import hashlib
import pytest


class TestContentAddressing:
    """测试内容哈希"""

    def test_file_md5(self, tmp_path):
        """测试文件 MD5"""
        from scriptpatch.packaging.content import file_md5

        p = tmp_path / "a.bin"
        p.write_bytes(b"hello")
        assert file_md5(p) == hashlib.md5(b"hello").hexdigest()

    def test_same_content_same_hash(self, tmp_path):
        """不同路径相同内容得到相同哈希"""
        from scriptpatch.packaging.content import file_md5

        a = tmp_path / "a.jsc"
        b = tmp_path / "nested" / "b.jsc"
        b.parent.mkdir()
        a.write_bytes(b"same bytes")
        b.write_bytes(b"same bytes")
        assert file_md5(a) == file_md5(b)
        assert file_md5(a) == file_md5(a)

    def test_large_file_chunked(self, tmp_path):
        """测试大于分块大小的文件"""
        from scriptpatch.packaging.content import file_md5, CHUNK_SIZE

        data = b"x" * (CHUNK_SIZE * 2 + 3)
        p = tmp_path / "big.bin"
        p.write_bytes(data)
        assert file_md5(p) == hashlib.md5(data).hexdigest()

    def test_file_size(self, tmp_path):
        from scriptpatch.packaging.content import file_size

        p = tmp_path / "a.bin"
        p.write_bytes(b"12345")
        assert file_size(p) == 5

    def test_missing_file_is_error(self, tmp_path):
        """缺失文件抛出 PublishError 并带路径"""
        from scriptpatch.packaging.content import file_md5, file_size
        from scriptpatch.errors import PublishError

        missing = tmp_path / "missing.jsc"
        with pytest.raises(PublishError) as exc:
            file_md5(missing)
        assert exc.value.path == str(missing)
        with pytest.raises(PublishError):
            file_size(missing)

    def test_tagged_name(self):
        """测试 name@md5 命名"""
        from scriptpatch.packaging.content import tagged_name, split_tagged_name

        assert tagged_name("a/b.jsc", "abc") == "a/b.jsc@abc"
        assert tagged_name("Manifest.db", "") == "Manifest.db"
        assert split_tagged_name("a/b.jsc@abc") == ("a/b.jsc", "abc")
        assert split_tagged_name("a/b.jsc") == ("a/b.jsc", "")
        assert split_tagged_name("user@host/b.jsc") == ("user@host/b.jsc", "")


class TestGenTag:
    """测试脚本包标签"""

    def test_nested_path(self):
        from scriptpatch.packaging.tags import gen_tag
        assert gen_tag("Scripts/Example/Test.ts") == "scripts_example.jsc"

    def test_no_directory(self):
        from scriptpatch.packaging.tags import gen_tag
        assert gen_tag("Test.ts") == "default.jsc"
        assert gen_tag("a b#c[d].ts") == "default.jsc"

    @pytest.mark.parametrize("path", [
        "myfolder/myscript.jsc",
        "my folder/myscript.jsc",
        "my#folder/myscript.jsc",
        "[myfolder]/myscript.jsc",
        "myfolder\\myscript.jsc",
    ])
    def test_escape_chars(self, path):
        """空格、#、[ ] 被去除，反斜杠视为分隔符"""
        from scriptpatch.packaging.tags import gen_tag
        assert gen_tag(path) == "myfolder.jsc"

    def test_underscore_kept(self):
        """下划线保留"""
        from scriptpatch.packaging.tags import gen_tag
        assert gen_tag("My_Folder/Sub Dir/x.ts") == "my_folder_subdir.jsc"
        assert gen_tag("a b#c[d]_e/f.ts") == "abcd_e.jsc"

    def test_escape_table(self):
        from scriptpatch.packaging.tags import ESCAPE_CHARS
        assert ESCAPE_CHARS["_"] == "_"
        for ch in (" ", "#", "[", "]"):
            assert ESCAPE_CHARS[ch] == ""

    def test_group_by_tag(self):
        """按目录分组，保持首次出现顺序且去重"""
        from scriptpatch.packaging.tags import group_by_tag

        groups = group_by_tag([
            "ui/a.js", "Main.js", "ui/b.js", "ui/a.js", "core/net/c.js",
        ])
        assert list(groups) == ["ui.jsc", "default.jsc", "core_net.jsc"]
        assert groups["ui.jsc"] == ["ui/a.js", "ui/b.js"]
