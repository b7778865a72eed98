from call_analytics.services.result_materializer.materializer import ResultMaterializer

__all__ = ["ResultMaterializer"]
