"""
Unit tests for Config
"""

import pytest
import json
import tempfile
import os
from pathlib import Path
from pipeproc.utils.config import Config, ProcessConfig, LoggingConfig, parse_size


class TestConfig:
    """Test cases for configuration management"""
    
    def test_config_dataclasses(self):
        """Test configuration dataclass creation"""
        process_config = ProcessConfig()
        assert process_config.poll_interval_ms == 100
        assert process_config.wait_timeout_ms is None
        assert process_config.read_grace_ms == 100
        assert process_config.read_chunk_size == 65536
        assert process_config.encoding == "utf-8"
        
        logging_config = LoggingConfig()
        assert logging_config.level == "INFO"
        assert logging_config.file is None
        assert logging_config.max_size == "10MB"
        assert logging_config.backup_count == 5
        
        config = Config()
        assert config.process == process_config
        assert config.logging == logging_config
    
    def test_load_from_file_basic(self):
        """Test basic configuration file loading"""
        config_data = {
            "process": {
                "poll_interval_ms": 20,
                "wait_timeout_ms": 5000,
                "read_grace_ms": 0,
                "read_chunk_size": 4096,
                "encoding": "latin-1"
            },
            "logging": {
                "level": "DEBUG",
                "file": "test.log",
                "max_size": "5MB",
                "backup_count": 3
            }
        }
        
        with tempfile.TemporaryDirectory() as tmp:
            temp_path = Path(tmp) / "config.json"
            temp_path.write_text(json.dumps(config_data), encoding='utf-8')
            
            config = Config.load_from_file(temp_path)
        
        assert config.process.poll_interval_ms == 20
        assert config.process.wait_timeout_ms == 5000
        assert config.process.read_grace_ms == 0
        assert config.process.read_chunk_size == 4096
        assert config.process.encoding == "latin-1"
        
        assert config.logging.level == "DEBUG"
        assert config.logging.file == "test.log"
        assert config.logging.max_size == "5MB"
        assert config.logging.backup_count == 3
    
    def test_load_from_file_partial(self):
        """Test that missing sections fall back to defaults"""
        with tempfile.TemporaryDirectory() as tmp:
            temp_path = Path(tmp) / "config.json"
            temp_path.write_text(json.dumps({"process": {"poll_interval_ms": 50}}), encoding='utf-8')
            
            config = Config.load_from_file(temp_path)
        
        assert config.process.poll_interval_ms == 50
        assert config.process.read_grace_ms == 100
        assert config.logging == LoggingConfig()
    
    def test_load_from_file_with_env_override(self):
        """Test configuration loading with environment variable override"""
        config_data = {
            "process": {"poll_interval_ms": 100, "wait_timeout_ms": 1000},
            "logging": {"level": "INFO"}
        }
        
        env_vars = {
            'PIPEPROC_POLL_INTERVAL_MS': '25',
            'PIPEPROC_WAIT_TIMEOUT_MS': '9000',
            'PIPEPROC_LOG_LEVEL': 'WARNING'
        }
        
        original_env = {}
        with tempfile.TemporaryDirectory() as tmp:
            temp_path = Path(tmp) / "config.json"
            temp_path.write_text(json.dumps(config_data), encoding='utf-8')
            try:
                for key, value in env_vars.items():
                    original_env[key] = os.environ.get(key)
                    os.environ[key] = value
                
                config = Config.load_from_file(temp_path)
                
                # Environment variables should override config file
                assert config.process.poll_interval_ms == 25
                assert config.process.wait_timeout_ms == 9000
                assert config.logging.level == "WARNING"
                
            finally:
                for key, value in original_env.items():
                    if value is None:
                        os.environ.pop(key, None)
                    else:
                        os.environ[key] = value
    
    def test_load_dotenv_next_to_config(self, monkeypatch):
        """Test that a .env file beside the config file is honoured"""
        monkeypatch.delenv('PIPEPROC_READ_GRACE_MS', raising=False)
        
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "config.json"
            config_path.write_text("{}", encoding='utf-8')
            (Path(tmp) / ".env").write_text("PIPEPROC_READ_GRACE_MS=7\n", encoding='utf-8')
            
            try:
                config = Config.load_from_file(config_path)
            finally:
                os.environ.pop('PIPEPROC_READ_GRACE_MS', None)
        
        assert config.process.read_grace_ms == 7
    
    def test_from_env(self, monkeypatch):
        """Test configuration built from environment only"""
        monkeypatch.setenv('PIPEPROC_READ_CHUNK_SIZE', '1024')
        monkeypatch.setenv('PIPEPROC_WAIT_TIMEOUT_MS', '')
        
        config = Config.from_env()
        
        assert config.process.read_chunk_size == 1024
        assert config.process.wait_timeout_ms is None
    
    def test_validate_config(self):
        """Test configuration validation"""
        config = Config(
            process=ProcessConfig(100, 1000, 100, 65536, "utf-8"),
            logging=LoggingConfig("INFO", None, "10MB", 5)
        )
        
        assert config.validate() == True
        
        config.process.poll_interval_ms = 0
        with pytest.raises(ValueError, match="Poll interval must be positive"):
            config.validate()
        
        config.process.poll_interval_ms = 100
        config.process.wait_timeout_ms = -1
        with pytest.raises(ValueError, match="Wait timeout must not be negative"):
            config.validate()
        
        config.process.wait_timeout_ms = None
        config.process.read_chunk_size = 0
        with pytest.raises(ValueError, match="Read chunk size must be positive"):
            config.validate()
        
        config.process.read_chunk_size = 65536
        config.process.encoding = "no-such-codec"
        with pytest.raises(ValueError, match="Unknown encoding"):
            config.validate()
        
        config.process.encoding = "utf-8"
        config.logging.level = "LOUD"
        with pytest.raises(ValueError, match="Unknown log level"):
            config.validate()
        
        config.logging.level = "debug"
        config.logging.max_size = "lots"
        with pytest.raises(ValueError, match="Invalid log max size"):
            config.validate()
    
    def test_validate_reports_every_problem(self):
        """Test that all validation errors are reported together"""
        config = Config(process=ProcessConfig(poll_interval_ms=0, read_grace_ms=-1))
        
        with pytest.raises(ValueError) as excinfo:
            config.validate()
        
        assert "Poll interval must be positive" in str(excinfo.value)
        assert "Read grace delay must not be negative" in str(excinfo.value)
    
    def test_parse_size(self):
        """Test human readable size parsing"""
        assert parse_size("10MB") == 10 * 1024 * 1024
        assert parse_size("512") == 512
        assert parse_size("4kb") == 4096
        assert parse_size("1G") == 1024 ** 3
        
        with pytest.raises(ValueError):
            parse_size("ten megs")
    
    def test_file_not_found(self):
        """Test handling of missing configuration file"""
        non_existent_path = Path("/non/existent/config.json")
        
        with pytest.raises(FileNotFoundError):
            Config.load_from_file(non_existent_path)
    
    def test_invalid_json(self):
        """Test handling of invalid JSON in configuration file"""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            f.write("{ invalid json }")
            temp_path = Path(f.name)
        
        try:
            with pytest.raises(json.JSONDecodeError):
                Config.load_from_file(temp_path)
        finally:
            os.unlink(temp_path)


if __name__ == "__main__":
    pytest.main([__file__])
