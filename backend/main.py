import uvicorn
import os

if __name__ == "__main__":
    # 开发模式：DEV=true 时热重载
    is_dev = os.getenv("DEV", "false").lower() == "true"

    uvicorn.run(
        "warehouse_erp.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=is_dev,
        log_level="info"
    )
