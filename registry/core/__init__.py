from .pipeline import RegistryPipeline, PipelineResult

__all__ = ['RegistryPipeline', 'PipelineResult']
